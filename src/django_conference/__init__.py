"""Conference ticketing, call-for-papers and back-office apps for Django."""
