from .local_base import *  # noqa: F403
