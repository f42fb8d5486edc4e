"""Output-oriented subcommands for the cadenza CLI."""
