"""Test configuration for the flexproto suite."""


def pytest_configure(config):
    """Print test names without their file paths when reporting."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False
