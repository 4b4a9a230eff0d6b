from .session import ClientSession, SessionStore
from .datasource import (
    LibraryDataSource,
    ApiDataSource,
    DemoDataSource,
    make_datasource,
)
from .dashboard import Dashboard, DashboardState
