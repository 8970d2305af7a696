from pluginhub.plugins.blog.manifest import BLOG_PLUGIN_ID, build_manifest
