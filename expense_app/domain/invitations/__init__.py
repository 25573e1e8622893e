from .service import InvitationService, parse_invitation_csv
