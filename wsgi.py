from fieldtriage import create_app

app = create_app()
