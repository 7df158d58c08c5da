from devstack.main import cli

cli()
