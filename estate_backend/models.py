from enum import Enum


# Enums
class Role(str, Enum):
    user = "user"
    tenant = "tenant"
    landlord = "landlord"
    agent = "agent"
    builder = "builder"
    admin = "admin"


# Roles a user may pick at signup; the rest are granted by verification or admins
SIGNUP_ROLES = (Role.user, Role.tenant, Role.landlord)


class UserType(str, Enum):
    owner = "owner"
    dealer = "dealer"
    buyer = "buyer"


class PlanType(str, Enum):
    free = "free"
    basic = "basic"
    standard = "standard"
    premium = "premium"
    boss = "boss"


class Feature(str, Enum):
    create_listing = "create_listing"
    view_contact = "view_contact"
    use_ai = "use_ai"
    virtual_tour = "virtual_tour"
    customer_care = "customer_care"


class PropertyStatus(str, Enum):
    active = "active"
    pending = "pending"
    sold = "sold"
    rented = "rented"
    expired = "expired"
    draft = "draft"


class PropertyType(str, Enum):
    apartment = "apartment"
    house = "house"
    villa = "villa"
    land = "land"
    commercial = "commercial"
    office = "office"
    other = "other"


class ListingType(str, Enum):
    sale = "sale"
    rent = "rent"


class ProjectStatus(str, Enum):
    pending = "pending"
    active = "active"
    completed = "completed"
    rejected = "rejected"


class CommercialStatus(str, Enum):
    active = "active"
    sold_out = "sold_out"
    coming_soon = "coming_soon"


class CommercialType(str, Enum):
    office = "Office"
    retail = "Retail"
    warehouse = "Warehouse"
    data_center = "Data Center"
    co_working = "Co-working"
    industrial = "Industrial"


class LeaseStatus(str, Enum):
    draft = "draft"
    active = "active"
    expired = "expired"
    terminated = "terminated"


class BillStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    overdue = "overdue"


class UtilityType(str, Enum):
    electricity = "electricity"
    water = "water"
    gas = "gas"
    internet = "internet"
    trash = "trash"
    other = "other"


class ResponsibleParty(str, Enum):
    landlord = "landlord"
    tenant = "tenant"


class InquiryStatus(str, Enum):
    new = "new"
    read = "read"
    replied = "replied"
    closed = "closed"


class ReviewStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class AppointmentStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"


class AppointmentType(str, Enum):
    property_viewing = "property-viewing"
    consultation = "consultation"
    other = "other"


class NotificationType(str, Enum):
    inquiry = "inquiry"
    lease = "lease"
    bill = "bill"
    payment = "payment"
    appointment = "appointment"
    verification = "verification"
    system = "system"


class NotificationPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class KycStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class VerificationType(str, Enum):
    agent = "agent"
    builder = "builder"


class VerificationStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class TourType(str, Enum):
    panorama = "360-panorama"
    walkthrough = "3d-walkthrough"
    video = "video-tour"
    floor_plan = "floor-plan"


class FavoriteKind(str, Enum):
    properties = "properties"
    projects = "projects"
    agents = "agents"
    builders = "builders"


class RentalUnitType(str, Enum):
    apartment = "apartment"
    house = "house"
    condo = "condo"
    townhouse = "townhouse"
    studio = "studio"


class RentalUnitStatus(str, Enum):
    available = "available"
    rented = "rented"
    maintenance = "maintenance"
    inactive = "inactive"


class InsightAspect(str, Enum):
    pricing = "pricing"
    market_trends = "marketTrends"
    investment_potential = "investmentPotential"
