"""taskhub: session-authenticated task manager (FastAPI + SQLModel)."""
