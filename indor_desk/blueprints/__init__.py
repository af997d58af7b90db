"""HTTP blueprints. Views stay thin; services own validation and commits."""

from indor_desk.blueprints.client_bp import client_bp
from indor_desk.blueprints.health_bp import health_bp
from indor_desk.blueprints.note_bp import note_bp
from indor_desk.blueprints.pending_task_bp import pending_task_bp
from indor_desk.blueprints.progression_bp import progression_bp

ALL_BLUEPRINTS = (health_bp, client_bp, progression_bp, note_bp, pending_task_bp)


def register_blueprints(app):
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)
