"""CSS styles for the AgentDuty feed TUI."""

# Below this width the detail pane is dropped and cards render in one column
MIN_SPLIT_WIDTH = 90
LIST_PANEL_WIDTH = 36

APP_CSS = f"$list-width: {LIST_PANEL_WIDTH};\n" + """
Screen {
    layout: vertical;
}

#panes {
    height: 1fr;
}

#list-container {
    width: $list-width;
    height: 100%;
    border: solid $primary;
}

#detail-container {
    width: 1fr;
    height: 100%;
    border: solid $secondary;
    padding: 1 2;
}

Screen.single #panes {
    layout: vertical;
}

Screen.single #list-container {
    width: 100%;
    height: auto;
    max-height: 60%;
}

Screen.single #detail-container {
    width: 100%;
    height: 1fr;
}

.list-header {
    height: auto;
    background: $surface;
    padding: 0 1;
    text-style: bold;
    color: $primary;
}

#feed-list {
    height: auto;
    padding: 0 1;
}

#detail-panel {
    height: 1fr;
    overflow-y: auto;
    scrollbar-gutter: stable;
}

#error-bar {
    height: auto;
    padding: 0 1;
    color: $error;
    display: none;
}

#error-bar.visible {
    display: block;
}

#status-bar {
    height: 1;
    padding: 0 1;
    color: $text-muted;
}

#reply-input {
    display: none;
    height: 3;
    border: solid $warning;
    padding: 0 1;
}

#reply-input.visible {
    display: block;
}

Footer {
    background: $surface;
}
"""
