"""Qt-aware controllers used by the settings window."""

from .config_setup_controller import ConfigSetupController

__all__ = ["ConfigSetupController"]
