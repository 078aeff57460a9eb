# Import models for table creation
import app.modules.auth.models  # noqa: F401
import app.modules.business_units.models  # noqa: F401
import app.modules.sales_categories.models  # noqa: F401
import app.modules.articles.models  # noqa: F401
import app.modules.subjects.models  # noqa: F401
import app.modules.access.models  # noqa: F401
import app.modules.localization.models  # noqa: F401
import app.modules.sales.models  # noqa: F401
