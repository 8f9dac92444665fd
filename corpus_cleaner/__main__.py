from .app import app

app(prog_name="corpus-cleaner")
