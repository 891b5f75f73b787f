import os

from hugos import create_app, db
from config import config
import click

app = create_app(config[os.environ.get('FLASK_CONFIG', 'default')])


@app.cli.command("init-db")
@click.option("--drop", is_flag=True, help="Drop existing tables first")
def init_db(drop: bool) -> None:
    """Create all database tables."""
    if drop:
        db.drop_all()
        click.echo("Dropped all tables")
    db.create_all()
    click.echo("Database tables created")


@app.cli.command("cleanup-cache")
def cleanup_cache() -> None:
    """Delete expired feedback cache entries."""
    removed = app.extensions['feedback_cache'].cleanup_expired()
    click.echo(f"Removed {removed} expired cache entries")


@app.cli.command("expire-payments")
def expire_payments() -> None:
    """Mark pending payments past their expiry as expired."""
    expired = app.extensions['payment_store'].expire_stale()
    click.echo(f"Expired {expired} stale payments")


if __name__ == '__main__':
    app.run(debug=True)
