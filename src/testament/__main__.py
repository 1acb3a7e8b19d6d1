from testament.cli.main import cli

cli()
