from core.blocks.bridge import BridgeState, TelloBridge
from core.blocks.metadata import REPORTER_SPECS, build_extension_info

__all__ = ["BridgeState", "TelloBridge", "REPORTER_SPECS", "build_extension_info"]
