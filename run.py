import uvicorn

# NOTE: Do NOT import wa_rest.main or wa_rest.core.config here globally.
# They read config.ini on import. We must write the defaults first!

if __name__ == "__main__":
    # 1. Create config.ini if needed
    from wa_rest import setup_config
    setup_config.ensure_config()

    # 2. Now it's safe to import the app, as config.ini is ready
    from wa_rest.main import app
    from wa_rest.core import config

    print(f"Starting server on port {config.PORT}...")
    uvicorn.run(app, host=config.HOST, port=config.PORT, reload=False)
