"""Game domain services: session state machine, votes and coordination.

This package contains the game logic imported by socket handlers and HTTP
routes, keeping transport concerns separated from core game mechanics.
Only ``store`` touches the database.
"""
