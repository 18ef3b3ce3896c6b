from llamacpp_cli.cli import app

app()
