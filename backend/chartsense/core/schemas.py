from datetime import datetime
from typing import List, Optional, Dict, Union, Literal
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

ColumnType = Literal['number', 'string', 'date', 'boolean']
ChartType = Literal['bar', 'line', 'pie', 'scatter', 'area']
CellValue = Optional[Union[bool, int, float, str]]

CHART_TYPES = ('bar', 'line', 'pie', 'scatter', 'area')


class CamelModel(BaseModel):
    """Models that cross the API boundary serialize with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TypedTable(CamelModel):
    """Canonical table: ordered columns, row records and one type per column."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    columns: List[str]
    rows: List[Dict[str, CellValue]]
    column_types: Dict[str, ColumnType]

    @model_validator(mode='after')
    def check_column_types(self) -> "TypedTable":
        if len(set(self.columns)) != len(self.columns):
            raise ValueError("Column names must be unique")
        if set(self.columns) != set(self.column_types):
            raise ValueError("Every column needs exactly one inferred type")
        return self

    def columns_of_type(self, column_type: str) -> List[str]:
        return [col for col in self.columns if self.column_types[col] == column_type]


class FeatureVector(CamelModel):
    num_numeric_columns: int
    num_string_columns: int
    num_date_columns: int
    num_boolean_columns: int
    total_columns: int
    total_rows: int

    has_time_series: bool
    has_categorical_data: bool
    has_multiple_metrics: bool
    data_completeness: float

    unique_value_ratio: float
    value_range: float
    value_variance: float

    has_date_keywords: bool
    has_time_keywords: bool
    has_category_keywords: bool
    has_metric_keywords: bool


class ChartCandidate(CamelModel):
    chart_type: ChartType
    confidence: float = Field(ge=0, le=1)
    x_axis: Optional[str] = None
    y_axis: Optional[str] = None
    data_key: Optional[str] = None
    title: str
    reasoning: str


class ChartPayload(CamelModel):
    id: str
    type: ChartType
    title: str
    x_axis: Optional[str] = None
    y_axis: Optional[str] = None
    data_key: Optional[str] = None
    data: List[Dict[str, Union[int, float, str]]]


class TopValue(CamelModel):
    value: str
    count: int
    percentage: float


class ColumnMetrics(CamelModel):
    type: ColumnType
    null_count: int
    null_percentage: float
    unique_count: int
    # Numeric columns
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    median: Optional[float] = None
    std_dev: Optional[float] = None
    sum: Optional[float] = None
    # Categorical columns
    top_values: Optional[List[TopValue]] = None


class ExtractedMetrics(CamelModel):
    row_count: int
    column_count: int
    data_completeness: float  # percentage, 0-100
    column_metrics: Dict[str, ColumnMetrics]
    correlations: Optional[Dict[str, Dict[str, float]]] = None
    key_insights: List[str] = []


class DataQuality(CamelModel):
    completeness: float
    accuracy: str


class AIInsights(CamelModel):
    summary: str
    key_insights: List[str]
    recommendations: List[str]
    data_quality: DataQuality
    trends: List[str]


class DataFile(CamelModel):
    id: str = ""
    filename: str
    file_type: Literal['csv', 'xlsx', 'json', 'pdf']
    uploaded_at: datetime
    row_count: int
    column_count: int


class AnalysisResult(CamelModel):
    file: DataFile
    parsed_data: TypedTable
    visualizations: List[ChartPayload]
    recommendations: List[ChartCandidate] = []
    ai_insights: AIInsights
    metrics: Optional[ExtractedMetrics] = None


class ChartRequest(CamelModel):
    # Validated by the route so that bad values map to a 400 with a readable message
    chart_type: Optional[str] = None
    x_axis: Optional[str] = None
    y_axis: Optional[str] = None
    data_key: Optional[str] = None


class FeedbackRequest(CamelModel):
    chart_id: str
    user_selected_chart: Optional[ChartType] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)


class FeedbackSample(CamelModel):
    features: FeatureVector
    recommended_chart: ChartType
    user_selected_chart: ChartType
    user_rating: int = Field(default=3, ge=1, le=5)
    timestamp: datetime


class DataChatRequest(CamelModel):
    question: str = Field(min_length=1, max_length=2000)


class FeedbackSummary(CamelModel):
    total_samples: int
    average_rating: float
    chart_type_accuracy: Dict[str, float]
    common_patterns: List[str]


class TrainingMatrix(CamelModel):
    features: List[List[float]]
    labels: List[str]
