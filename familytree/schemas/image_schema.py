from familytree.schemas.base_schema import CamelModel


class ImageUploadOut(CamelModel):
    success: bool = True
    image_url: str
    filename: str
    original_name: str
    size: int


class ImageOut(CamelModel):
    filename: str
    url: str
    path: str


class ImageListOut(CamelModel):
    success: bool = True
    images: list[ImageOut]
    count: int


class ImageDeleteOut(CamelModel):
    success: bool = True
    message: str
    filename: str
