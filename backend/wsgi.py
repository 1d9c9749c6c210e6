# backend/wsgi.py
from tyrepos import create_app

app = create_app()

if __name__ == "__main__":
    # The reloader would import the app twice and start two report schedulers
    app.run(debug=True, use_reloader=False)
