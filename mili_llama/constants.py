from zoneinfo import ZoneInfo


DEVICE_TZ = ZoneInfo("UTC")

# Firestore collections
SCHOOLS_COLLECTION = "Schools"
TEACHERS_COLLECTION = "Teachers"
ASSIGNMENTS_COLLECTION = "Assignments"
USERS_COLLECTION = "Users"
CLASSES_SUBCOLLECTION = "Classes"

# Storage folders
ATTACHMENTS_FOLDER = "Attachments"
ASSIGNMENTS_FOLDER = "Assignments"
PROFILE_PICTURE_FOLDER = "ProfilePicture"
PROFILE_PICTURE_FILE_NAME = "profilePic.jpg"
# Classless (personal) time off requests have no class segment of their own
PERSONAL_CLASS_SEGMENT = "Personal"

# Attachment fields patched by the create-then-attach workflow
CLASS_ROSTER_FIELD = "classRosterURL"
ASSIGNMENT_ATTACHMENTS_FIELD = "attachments"
PROFILE_PICTURE_FIELD = "profilePictureUrl"

# Activation codes handed out by school administrators
ACTIVATION_CODES = ("AOD24", "CA24", "Llama2024")

# Leave balances granted on signup (hours)
DEFAULT_SICK_TIME_HOURS = 40.0
DEFAULT_PTO_HOURS = 40.0
DEFAULT_UNPAID_LEAVE_USED = 0.0

# Reconciliation sweep
DEFAULT_RECONCILE_INTERVAL_MINUTES = 15
# a run still marked running after this long was cut off by a crash
DEFAULT_STALE_RUN_MINUTES = 60

SECONDS_IN_HOUR = 3600.0


class RequestType:
    PERSONAL = 0.0
    SICK = 1.0
    PTO = 2.0
    UNPAID = 3.0
