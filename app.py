from src.hr_sync.hr_sync.main import create_app

app = create_app()

if __name__ == "__main__":
    # Reloader would start a second event loop thread and subscriptions.
    app.run(debug=app.config["DEBUG"], use_reloader=False)
