from .models import (  # noqa: F401
    LogLevel,
    LoggingSettings,
    LocatorSettings,
    PatchSettings,
    ReviewKeys,
    ReviewSettings,
    Settings,
    ToolSpec,
)
from .loader import find_config, load_settings, parse_settings  # noqa: F401
