from comerciopro import create_app

app = create_app()
