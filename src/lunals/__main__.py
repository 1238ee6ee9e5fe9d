from lunals.cli import app

app(prog_name="lunals")
