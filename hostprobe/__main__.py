from hostprobe.cli import cli

cli()
