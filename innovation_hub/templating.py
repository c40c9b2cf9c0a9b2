from fastapi.templating import Jinja2Templates

from innovation_hub.config import BASE_DIR
from innovation_hub.flash import get_flashed_messages
from innovation_hub.formatting import category_icon, days_remaining, pluralize, status_badge_class
from innovation_hub.permissions import Capability, can

templates = Jinja2Templates(directory=str(BASE_DIR / "innovation_hub" / "templates"))

templates.env.filters["badge_class"] = status_badge_class
templates.env.filters["days_remaining"] = days_remaining
templates.env.filters["category_icon"] = category_icon
templates.env.filters["pluralize"] = pluralize
templates.env.globals["get_flashed_messages"] = get_flashed_messages
templates.env.globals["can"] = can
templates.env.globals["Capability"] = Capability
