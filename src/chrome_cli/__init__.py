"""chrome-cli: persistent Chrome sessions driven from the command line."""
