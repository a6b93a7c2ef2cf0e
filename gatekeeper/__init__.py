"""
Estate Gatekeeper

Noyau d'authentification et d'autorisation du CRM immobilier: matrice de
permissions, politique de mot de passe, second facteur OTP, sessions
serveur et parcours de connexion.
"""

__version__ = "1.0.0"
