# app.py
"""
Point d'entrée de l'application.

Usage:
  python app.py migrate --db galenique.db
  python app.py calc prop --dose 10 --freq 2 --duration 30
  python app.py lots 270
  python app.py prep-file visite.json
  python app.py planning suggest "BENALI KARIM"
  python app.py rel production
"""

from galenique.adapters.cli import main

if __name__ == "__main__":
    main()
