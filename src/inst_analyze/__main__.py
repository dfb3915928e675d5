from inst_analyze.cli import app

app()
