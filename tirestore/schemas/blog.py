from typing import List, Literal, Optional, Union

from pydantic import EmailStr, Field, field_validator

from tirestore.schemas.base import CamelModel, strip_tags


class BlogPostBase(CamelModel):
    title: Optional[str] = Field(None, min_length=3, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    excerpt: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=50)
    tags: Optional[Union[List[str], str]] = None
    image: Optional[str] = Field(None, max_length=500)
    status: Optional[Literal["draft", "published"]] = None
    featured: Optional[bool] = None


class BlogPostCreate(BlogPostBase):
    title: str = Field(..., min_length=3, max_length=255)
    content: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=50)
    status: Literal["draft", "published"] = "draft"


class BlogPostUpdate(BlogPostBase):
    pass


class CommentCreate(CamelModel):
    content: str = Field(..., min_length=2, max_length=2000)
    author_name: Optional[str] = Field(None, max_length=100)
    author_email: Optional[EmailStr] = None

    @field_validator("content", "author_name")
    @classmethod
    def sanitize_text(cls, value):
        return strip_tags(value)


class CommentModerate(CamelModel):
    status: Literal["pending", "approved", "spam"]


class BlogSubscribe(CamelModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=100)
