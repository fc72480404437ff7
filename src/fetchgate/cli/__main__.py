from fetchgate.cli.main import app

app(prog_name="fetchgate")
