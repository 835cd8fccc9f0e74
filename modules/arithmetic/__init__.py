from .arithmetic import SERVICE_DEFINITION, setup

__all__ = ["SERVICE_DEFINITION", "setup"]
