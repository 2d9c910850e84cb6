from autodev.cli import app

app()
