"""Database layer: catalog and progress tables plus async engine wiring."""
