app_name = "agenda_scheduling"
app_title = "Agenda Scheduling"
app_publisher = "Sebastian Ortiz Valencia"
app_description = "Motor de disponibilidad, recurrencia y asignación de citas"
app_email = "sebastianortiz989@gmail.com"
app_license = "mit"

# Apps
# ------------------

# required_apps = []

# Installation
# ------------

# before_install = "agenda_scheduling.install.before_install"
# after_install = "agenda_scheduling.install.after_install"

# Document Events
# ---------------
# Hook on document methods and events

# doc_events = {
# 	"*": {
# 		"on_update": "method",
# 		"on_cancel": "method",
# 		"on_trash": "method"
# 	}
# }

# Agenda Hooks
# ------------
# Otras apps pueden extender el agendamiento declarando estos hooks en su
# propio hooks.py.
#
# agenda_capacity_check: fn(organization, count) -> bool
#   Se consulta antes de cada reserva; si alguna devuelve False la reserva
#   se rechaza con CapacityExceededError.
#
# agenda_appointments_booked: fn(appointment_names)
#   Se llama después del commit de cada reserva (cita o serie completa).
#   Los errores se registran en Error Log y nunca revierten la reserva.

agenda_capacity_check = []
agenda_appointments_booked = []

# Testing
# -------

# before_tests = "agenda_scheduling.install.before_tests"

# Request Events
# ----------------
# before_request = ["agenda_scheduling.utils.before_request"]
# after_request = ["agenda_scheduling.utils.after_request"]

# Automatically update python controller files with type annotations for this app.
# export_python_type_annotations = True
