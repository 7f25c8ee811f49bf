"""Social posting API with favorite-author notification fan-out."""
