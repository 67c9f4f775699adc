import json
import click

from notesync.auth.schemas import IssuedClientOut
from notesync.auth.service import issue_client

def register_cli(app):
    @app.cli.command("issue-token")
    @click.argument("username")
    def issue_token(username):
        """Crée une session client pour USERNAME et affiche son token."""
        client = issue_client(username)
        click.echo(json.dumps(IssuedClientOut().dump(client)))
