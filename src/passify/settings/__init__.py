"""Django settings for the Passify project.

Each topic lives in its own module and reads the environment through python-decouple.
"""

from .base import *  # noqa: F403
from .celery import *  # noqa: F403
from .loyalty import *  # noqa: F403
from .observability import *  # noqa: F403
from .wallet import *  # noqa: F403
