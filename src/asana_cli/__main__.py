from .composition import app

app(prog_name="asana-cli")
