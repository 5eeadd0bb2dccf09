from tbfwquery.app import app

app(prog_name="tbfwquery")
