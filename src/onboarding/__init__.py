"""VectorPlane Azure onboarding: zero-secret federated identity trust."""

__version__ = "0.1.0"
