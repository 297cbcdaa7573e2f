from stockpoint import create_app

app = create_app()
