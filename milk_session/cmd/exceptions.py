class MilkSessionSystemExit(SystemExit):
    """Raised by the command line to exit with a message already printed."""
