# database.py
from databases import Database
from sqlalchemy import create_engine, MetaData
import os
from dotenv import load_dotenv

load_dotenv()

# SQLite by default; point DATABASE_URL at PostgreSQL when several workers
# share one database so that SELECT ... FOR UPDATE takes real row locks.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./slot_swapper.db")

# Slot, swap request and user tables all register on this metadata.
metadata = MetaData()

# Request handlers and the negotiation engine go through `database`;
# `engine` only runs the startup DDL (metadata.create_all).
database = Database(DATABASE_URL)
engine = create_engine(DATABASE_URL)
