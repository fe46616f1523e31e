DEFAULT_TOPIC = "zap-events"
DEFAULT_GROUP_ID = "main-worker"
DEFAULT_CLIENT_ID = "outbox-processor"

# Run metadata key the generative-AI action writes its output to
AI_RESPONSE_KEY = "aiResponse"

DEFAULT_STAGE_DELAY = 1.0
DEFAULT_OUTBOX_BATCH_SIZE = 10
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_EXECUTOR_TIMEOUT = 30.0

LAMPORTS_PER_SOL = 1_000_000_000
