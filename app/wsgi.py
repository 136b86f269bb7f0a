from app.tcms import create_app

app = create_app()
