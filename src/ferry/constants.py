"""Constants for ferry CLI."""

# Subprocess timeouts (seconds)
GIT_TIMEOUT = 30
BUILD_TIMEOUT = 1800  # 30 minutes for image builds
PUSH_TIMEOUT = 900
REGISTRY_TIMEOUT = 60
CONTROL_PLANE_TIMEOUT = 60
INIT_TOOL_CHECK_TIMEOUT = 10

LATEST_TAG = "latest"
FERRY_DIR = ".ferry"
