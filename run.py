import json
import os
import logging
from flask import Flask
from movietracker.catalog import CatalogClient, DEFAULT_BASE_URL
from movietracker.repo import SqliteDocumentStore
from movietracker.service import MediaListStore
from movietracker.web import register_routes, register_error_handlers

DEFAULT_CFG = {
    "database": "data/movietracker.db",
    "debug": True,
    "host": "127.0.0.1",
    "port": 5000,
    "logging_level": "INFO",
    "tmdb_base_url": DEFAULT_BASE_URL,
    "tmdb_api_key": "",
    "tmdb_timeout": 10,
}

def load_config(path="config.json"):
    if not os.path.exists(path):
        merged = DEFAULT_CFG.copy()
    else:
        try:
            with open(path, "r", encoding="utf-8") as f:
                cfg = json.load(f)
        except (OSError, ValueError) as e:
            print("Failed to read config.json:", e, " - using defaults")
            cfg = {}
        merged = DEFAULT_CFG.copy()
        merged.update(cfg)
    # secrets come from the environment when set
    if os.environ.get("TMDB_API_KEY"):
        merged["tmdb_api_key"] = os.environ["TMDB_API_KEY"]
    return merged

cfg = load_config()

def configure_logging(level_name: str):
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # quieter werkzeug when not debugging
    logging.getLogger("werkzeug").setLevel(logging.WARNING if not cfg.get("debug") else logging.INFO)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

def create_app(config=None):
    conf = dict(cfg)
    conf.update(config or {})
    configure_logging(conf.get("logging_level", "INFO"))
    logger = logging.getLogger(__name__)
    logger.info("Starting app with config: %s",
                {k: v for k, v in conf.items() if k not in ("database", "tmdb_api_key")})

    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY", "dev-key")
    docs = SqliteDocumentStore(conf["database"])
    docs.init_schema()
    service = MediaListStore(docs)
    catalog = CatalogClient(conf.get("tmdb_api_key", ""), conf.get("tmdb_base_url", DEFAULT_BASE_URL),
                            timeout=conf.get("tmdb_timeout", 10))

    register_routes(app, service, catalog)
    register_error_handlers(app)
    return app

if __name__ == "__main__":
    app = create_app()
    app.run(host=cfg.get("host", "127.0.0.1"), port=cfg.get("port", 5000), debug=cfg.get("debug", True))
