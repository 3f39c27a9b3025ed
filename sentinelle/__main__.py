from sentinelle.cli import app


app(prog_name='sentinelle')
