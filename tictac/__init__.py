"""Two-seat real-time tic-tac-toe session server.

The session core (models, rules, controller, registry) is kept free of FastAPI
concerns; `tictac.api` and `tictac.main` bind it to WebSockets.
"""

__version__ = "0.1.0"
