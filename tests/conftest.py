import os
import tempfile

# Route log and metrics files away from the working copy before any module
# under test configures its logger or metrics sink.
_SCRATCH = tempfile.mkdtemp(prefix="pnl-agent-tests-")
os.environ.setdefault("PNL_AGENT_LOG_FILE", os.path.join(_SCRATCH, "pnl_agent.log"))
os.environ.setdefault("METRICS_PATH", os.path.join(_SCRATCH, "metrics.csv"))
