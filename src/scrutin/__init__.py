"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/__init__.py`.
Ce module fait partie de Scrutin Engine : agrégation des résultats et
contrôle de la publication par circonscription, département et commune.

Composants détectés :
  - (aucun composant de niveau module / no top-level components)

======================== ENGLISH ========================
File: `src/scrutin/__init__.py`.
This module is part of Scrutin Engine: results aggregation and publication
control per circonscription, department and commune.

Detected components:
  - (no top-level components)
"""

__version__ = "0.3.0"
