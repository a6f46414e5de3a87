# migrations/env.py

from __future__ import annotations
from logging.config import fileConfig
from alembic import context
from sqlalchemy import engine_from_config, pool

from hrm_api.wsgi import app as flask_app
from hrm_api.extensions import db

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# the Flask config is the only source of the database URL
DB_URL = flask_app.config["SQLALCHEMY_DATABASE_URI"]
config.set_main_option("sqlalchemy.url", DB_URL.replace("%", "%%"))

target_metadata = db.metadata

# SQLite cannot ALTER constraints in place
BATCH = DB_URL.startswith("sqlite")


def _configure(**kw) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, render_as_batch=BATCH, **kw)


def run_migrations_offline() -> None:
    _configure(url=DB_URL, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection, flask_app.app_context():
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
