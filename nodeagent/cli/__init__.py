"""nodeagent CLI - run the node lifecycle and inspect local identity.

Usage:
    nodeagent --help                 # Show all available commands
    nodeagent run                    # Full lifecycle against the server
    nodeagent facts -f table         # Show collected host facts
    nodeagent node-id web1.example   # Show the safe identifier for a name
"""

from nodeagent.cli.main import app

__all__ = ["app"]
