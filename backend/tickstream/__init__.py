"""tickstream: simulated live market prices over REST and WebSocket."""
