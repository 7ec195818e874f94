from .charts import (
    ChartInputs,
    BodyPosition,
    HouseSet,
    Aspect,
    ChartMeta,
    ChartDocument,
    ChartCreateRequest,
    ComputeRequest,
    CreatedChart,
    StoredEvent,
    CrossAspect,
    TransitsResponse,
)
