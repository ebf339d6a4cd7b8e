"""
Erreurs métier de l'API QRPases.

Chaque erreur porte le code HTTP renvoyé par le handler global (voir main.py).
Les erreurs sont remontées telles quelles à l'appelant : aucune relance
automatique, aucune file de rejeu. L'utilisateur doit rescanner ou resoumettre.
"""


class AttendanceError(Exception):
    """Erreur de base de la réconciliation d'assistance."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidIdentity(AttendanceError):
    """RUN absent ou vide dans le QR scanné."""


class InvalidEventType(AttendanceError):
    """Type d'événement inconnu (ni Atrasos ni Inasistencias)."""


class InvalidPhone(AttendanceError):
    """Téléphone d'apoderado hors format chilien +56 D XXXX XXXX."""


class MissingGuardianName(AttendanceError):
    """Nom d'apoderado vide alors qu'il est requis."""


class RecordNotFound(AttendanceError):
    """Registre (ou élève) cible introuvable."""
    status_code = 404


class AlreadyJustified(AttendanceError):
    """Le registre possède déjà une justification."""
    status_code = 409


class ScanInProgress(AttendanceError):
    """Un scan est déjà en cours (ou en délai de repos) sur cet appareil."""
    status_code = 409


class NetworkFailure(AttendanceError):
    """Échec d'un appel au backend de stockage (tableur ou base de données)."""
    status_code = 502
