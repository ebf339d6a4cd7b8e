# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.

from qrpases.models.student import Student  # noqa: F401  (doit précéder attendance)
from qrpases.models.attendance import AttendanceRecord, Justification  # noqa: F401
