"""
Meta tags and JSON-LD structured data for site pages
"""
import logging
from datetime import datetime
from typing import List, Dict, Any, Optional

from config import MetadataConfig
from models import Keyword, MetaTags
from utils import join_url

logger = logging.getLogger(__name__)

SCHEMA_CONTEXT = "https://schema.org"


class MetadataBuilder:
    """Builds meta tags and structured data from configured templates"""

    def __init__(self, config: MetadataConfig = None):
        self.config = config or MetadataConfig()

    def build_meta_tags(self, page_type: str, keywords: List = None,
                        location: Optional[str] = None, path: str = "/",
                        year: Optional[int] = None) -> MetaTags:
        keyword_texts = [k.text if isinstance(k, Keyword) else str(k) for k in (keywords or [])]
        values = {
            'location': location or self.config.default_location,
            'year': year or datetime.now().year,
            'site_name': self.config.site_name,
            'primary_keyword': keyword_texts[0].title() if keyword_texts else self.config.site_name,
        }

        title = self._render(self.config.title_templates, page_type, values)
        description = self._render(self.config.description_templates, page_type, values)

        title = self._enforce_length(title, self.config.title_max_length, 'title', path)
        description = self._enforce_length(
            description, self.config.description_max_length, 'description', path
        )

        canonical = join_url(self.config.site_url, path)

        og_tags = {
            'og:title': title,
            'og:description': description,
            'og:url': canonical,
            'og:type': 'article' if page_type == 'blog' else 'website',
            'og:image': self.config.og_image_url,
            'og:site_name': self.config.site_name,
            'og:locale': self.config.locale,
        }
        twitter_tags = {
            'twitter:card': 'summary_large_image',
            'twitter:site': self.config.twitter_handle,
            'twitter:title': title,
            'twitter:description': description,
            'twitter:image': self.config.og_image_url,
        }

        return MetaTags(
            title=title,
            description=description,
            keywords=', '.join(keyword_texts),
            canonical=canonical,
            og_tags=og_tags,
            twitter_tags=twitter_tags,
        )

    def _render(self, templates: Dict[str, str], page_type: str, values: Dict[str, Any]) -> str:
        template = templates.get(page_type) or templates.get('default', '{site_name}')
        try:
            return template.format(**values)
        except (KeyError, IndexError) as e:
            logger.warning(f"Template for '{page_type}' has an unknown placeholder {e}, using default")
            return templates.get('default', '{site_name}').format(**values)

    def _enforce_length(self, text: str, max_length: int, kind: str, path: str) -> str:
        if len(text) <= max_length:
            return text
        logger.warning(f"Meta {kind} for {path} is {len(text)} chars (max {max_length}), truncating")
        return text[:max_length - 3].rstrip() + '...'

    def build_schemas(self, page_type: str, data: Optional[Dict[str, Any]] = None,
                      path: str = "/") -> List[Dict[str, Any]]:
        """JSON-LD objects: organization, page entity, FAQ (when given) and breadcrumbs"""
        data = data or {}
        schemas = [self._organization_schema()]

        schemas.append(self._page_schema(page_type, data, path))

        faqs = data.get('faqs') or []
        if faqs:
            schemas.append({
                '@context': SCHEMA_CONTEXT,
                '@type': 'FAQPage',
                'mainEntity': [
                    {
                        '@type': 'Question',
                        'name': faq.get('question', ''),
                        'acceptedAnswer': {'@type': 'Answer', 'text': faq.get('answer', '')},
                    }
                    for faq in faqs
                ],
            })

        schemas.append(self._breadcrumb_schema(path))
        return schemas

    def _organization_schema(self) -> Dict[str, Any]:
        schema = {
            '@context': SCHEMA_CONTEXT,
            '@type': 'Organization',
            'name': self.config.site_name,
            'url': self.config.site_url,
            'logo': self.config.logo_url,
            'image': self.config.og_image_url,
        }
        if self.config.social_profiles:
            schema['sameAs'] = list(self.config.social_profiles)
        return schema

    def _page_schema(self, page_type: str, data: Dict[str, Any], path: str) -> Dict[str, Any]:
        url = join_url(self.config.site_url, path)
        name = data.get('name') or data.get('title') or self.config.site_name
        description = data.get('description', '')

        if page_type == 'homepage':
            return {
                '@context': SCHEMA_CONTEXT,
                '@type': 'WebSite',
                'name': self.config.site_name,
                'url': self.config.site_url,
                'potentialAction': {
                    '@type': 'SearchAction',
                    'target': {
                        '@type': 'EntryPoint',
                        'urlTemplate': join_url(self.config.site_url, '/search') + '?q={search_term_string}',
                    },
                    'query-input': 'required name=search_term_string',
                },
            }

        if page_type == 'hotels':
            schema = {
                '@context': SCHEMA_CONTEXT,
                '@type': 'Hotel',
                'name': name,
                'description': description,
                'url': url,
                'address': {
                    '@type': 'PostalAddress',
                    'addressLocality': data.get('city') or self.config.default_location,
                },
            }
            if data.get('rating') is not None:
                schema['aggregateRating'] = {
                    '@type': 'AggregateRating',
                    'ratingValue': data['rating'],
                    'reviewCount': data.get('review_count', 0),
                }
            if data.get('amenities'):
                schema['amenityFeature'] = [
                    {'@type': 'LocationFeatureSpecification', 'name': amenity}
                    for amenity in data['amenities']
                ]
            return schema

        if page_type == 'tours':
            schema = {
                '@context': SCHEMA_CONTEXT,
                '@type': 'TouristAttraction',
                'name': name,
                'description': description,
                'url': url,
                'address': {
                    '@type': 'PostalAddress',
                    'addressLocality': data.get('city') or self.config.default_location,
                },
            }
            if data.get('price') is not None:
                schema['offers'] = {
                    '@type': 'Offer',
                    'price': data['price'],
                    'priceCurrency': data.get('currency', 'EUR'),
                    'availability': 'https://schema.org/InStock',
                }
            return schema

        if page_type == 'transfers':
            return {
                '@context': SCHEMA_CONTEXT,
                '@type': 'Service',
                'serviceType': data.get('service_type', 'Airport transfer'),
                'name': name,
                'url': url,
                'provider': {'@type': 'Organization', 'name': self.config.site_name},
                'areaServed': data.get('city') or self.config.default_location,
            }

        if page_type == 'blog':
            return {
                '@context': SCHEMA_CONTEXT,
                '@type': 'Article',
                'headline': data.get('title', name),
                'description': description,
                'image': data.get('image', self.config.og_image_url),
                'author': {'@type': 'Organization', 'name': self.config.site_name},
                'publisher': {
                    '@type': 'Organization',
                    'name': self.config.site_name,
                    'logo': {'@type': 'ImageObject', 'url': self.config.logo_url},
                },
                'datePublished': data.get('date_published'),
                'dateModified': data.get('date_modified'),
            }

        return {
            '@context': SCHEMA_CONTEXT,
            '@type': 'WebPage',
            'name': name,
            'description': description,
            'url': url,
        }

    def _breadcrumb_schema(self, path: str) -> Dict[str, Any]:
        items = [{
            '@type': 'ListItem',
            'position': 1,
            'name': 'Home',
            'item': join_url(self.config.site_url, '/'),
        }]

        current = ''
        for segment in [s for s in (path or '/').split('/') if s]:
            current += '/' + segment
            items.append({
                '@type': 'ListItem',
                'position': len(items) + 1,
                'name': segment.replace('-', ' ').title(),
                'item': join_url(self.config.site_url, current),
            })

        return {
            '@context': SCHEMA_CONTEXT,
            '@type': 'BreadcrumbList',
            'itemListElement': items,
        }
