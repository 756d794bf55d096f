from marketplace.schemas.common import CamelModel, envelope, error_envelope
from marketplace.schemas.auth import AccountResponse, ProviderProfileResponse, SessionResponse
from marketplace.schemas.admin import AdminResponse, AdminListResponse
