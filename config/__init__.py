"""Static data tables (title markers) shared by the pipelines."""
