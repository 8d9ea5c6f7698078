import os
import sys
import typer
from ees.config import settings
from ees.logging import logger, get_run_id

app = typer.Typer(no_args_is_help=True)

@app.callback()
def main():
    """
    Embedding engine operations CLI.
    """
    pass

@app.command(name="doctor")
def doctor():
    """
    Check configuration, data directory and provider reachability.
    """
    from ees.db import sqlite_file
    from ees.providers.factory import build_registry

    logger.info("Running doctor check...")

    failures: list[str] = []
    passed = 0

    print("\n🩺 EES Doctor\n")

    # ── Check 1: Environment / Interpreter ──────────────────────────────────
    print("[Environment]")
    print(f"  Python: {sys.version.split()[0]}")
    print(f"  Run ID: {get_run_id()}")
    passed += 1

    # ── Check 2: Configuration ──────────────────────────────────────────────
    print("\n[Configuration]")
    print(f"  EES_DEFAULT_PROVIDER:        {settings.DEFAULT_PROVIDER}")
    print(f"  EES_OLLAMA_BASE_URL:         {settings.OLLAMA_BASE_URL}")
    print(f"  EES_OLLAMA_DEFAULT_MODEL:    {settings.OLLAMA_DEFAULT_MODEL}")
    print(f"  EES_CACHE_ENABLED:           {settings.CACHE_ENABLED} (max {settings.CACHE_MAX_SIZE})")
    if settings.OPENAI_COMPATIBLE_BASE_URL:
        key_set = bool(
            settings.OPENAI_COMPATIBLE_API_KEY
            and settings.OPENAI_COMPATIBLE_API_KEY.get_secret_value()
        )
        print(f"  EES_OPENAI_COMPATIBLE_BASE_URL: {settings.OPENAI_COMPATIBLE_BASE_URL}")
        print(f"  EES_OPENAI_COMPATIBLE_API_KEY:  {'✅ Set' if key_set else '⚠️  Not set (sent as not-needed)'}")
    passed += 1

    # ── Check 3: Database file / directory writability ─────────────────────
    print("\n[Database]")
    db_file = sqlite_file(settings.database_url)
    if db_file is None:
        print(f"  {settings.database_url}  ⚠️  Not a SQLite file; skipped")
    elif db_file.exists():
        if os.access(db_file, os.W_OK):
            print(f"  {db_file}  ✅ Exists and writable")
            passed += 1
        else:
            print(f"  {db_file}  ❌ Exists but NOT writable")
            failures.append(f"{db_file} exists but is not writable; check file permissions")
    else:
        parent = db_file.parent
        target_dir = parent if parent.exists() else parent.parent
        if os.access(target_dir, os.W_OK):
            print(f"  {db_file}  ✅ Does not exist yet; `ees db init` can create it")
            passed += 1
        else:
            print(f"  {db_file}  ❌ {target_dir} is not writable")
            failures.append(f"{target_dir} is not writable, so db init cannot create {db_file.name}")

    # ── Check 4: Providers ──────────────────────────────────────────────────
    print("\n[Providers]")
    registry = build_registry(settings)
    try:
        for info in registry.list_providers():
            marker = " (active)" if info.active else ""
            if registry.check_status(info.name):
                print(f"  {info.name}{marker}: ✅ Reachable at {info.base_url}")
                passed += 1
            else:
                print(f"  {info.name}{marker}: ❌ Unreachable at {info.base_url}")
                failures.append(f"Provider {info.name} is not reachable at {info.base_url}")
    finally:
        registry.close()

    # ── Summary ──────────────────────────────────────────────────────────────
    total = passed + len(failures)
    print(f"\n{'─' * 50}")
    if failures:
        print(f"Result: {passed}/{total} checks passed\n")
        for msg in failures:
            print(f"  ❌ {msg}")
        print()
        raise typer.Exit(code=1)
    else:
        print(f"Result: {passed}/{total} checks passed, all good ✅")
        print()


db_app = typer.Typer(help="Database management commands.")
app.add_typer(db_app, name="db")

@db_app.command("init")
def init():
    """Create tables and apply compatibility upgrades."""
    from ees.db import init_db
    try:
        init_db()
        logger.info("Database initialized successfully.")
        print("✅ Database initialized.")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        print(f"❌ Failed: {e}")
        raise typer.Exit(code=1)

@db_app.command("stats")
def stats():
    """Show how many embeddings each model holds."""
    from ees.app import EmbeddingEngine
    from ees.domain.exceptions import StoreError
    from ees.infra.db.uow import UnitOfWork

    try:
        with EmbeddingEngine.from_settings() as engine, UnitOfWork() as uow:
            usage = engine.models(uow).get_usage_stats()
    except StoreError as e:
        print(f"❌ Failed: {e.message}")
        raise typer.Exit(code=1)

    if not usage.by_model:
        print("No embeddings stored.")
        return

    print(f"{usage.total} embeddings:")
    for model, count in usage.by_model.items():
        print(f"  {model}: {count}")

@app.command("models")
def models():
    """List models offered by the configured providers."""
    from ees.app import EmbeddingEngine
    from ees.infra.db.uow import UnitOfWork

    with EmbeddingEngine.from_settings() as engine, UnitOfWork() as uow:
        listed = engine.models(uow).list_models()

    if not listed:
        print("No models found.")
        return

    for m in listed:
        print(f"{m.provider:<18} {m.name:<32} dims={m.dimensions} max_tokens={m.max_tokens}")

if __name__ == "__main__":
    app()
