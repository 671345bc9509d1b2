"""Ferry: build, publish and deploy container images to a managed orchestrator."""

__version__ = "0.1.0"
