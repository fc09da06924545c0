# Style constants
STYLE_CYAN = "cyan"
STYLE_BRIGHT_CYAN = "bright_cyan"
STYLE_GREEN_BOLD = "green bold"
STYLE_BOLD_RED = "bold red"
STYLE_DIM = "dim"
STYLE_YELLOW_BOLD = "yellow bold"

# Status icons
ICON_SUCCESS = "✓"
ICON_FAILED = "✗"
ICON_WARNING = "!"

# Application/Display Specific Constants
APP_NAME = "Cardano-NodeKit"
HEADER_TITLE_STATUS = "Failover Status"
