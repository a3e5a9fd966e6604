"""Developer command-line tools (`python -m rlncast.cli.simulate`)."""
