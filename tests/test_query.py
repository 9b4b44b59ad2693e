# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""Tests for :mod:`parsnip.query` module."""

from datetime import datetime

import pytest
from pytz import UTC

from parsnip import Collection, Config
from parsnip.errors import InvalidOperatorError, ModelNotFoundError
from parsnip.query import PAGE_SIZE, Query
from parsnip.store import RemoteStore

from tests.models import Category, Comment, Foo, Post, User


def pointer(model):
    return {'__type': 'Pointer', 'className': model.remote_class_name(), 'objectId': model.id}


class SyntheticStore(RemoteStore):
    """
    Serves `size` objects with sorted ids, honouring ``objectId`` cursors.
    """

    def __init__(self, size):
        self.object_ids = ['{:06d}'.format(i) for i in range(size)]
        self.queries = []

    def query(self, class_name, where, order=None, include=None, keys=None, skip=None, limit=None,
              use_master_key=False):
        self.queries.append((where, order, limit))
        after = where.get('objectId', {}).get('$gt')
        object_ids = [i for i in self.object_ids if after is None or i > after]
        return [{'objectId': object_id} for object_id in object_ids[:limit]]

    def create_or_update(self, class_name, object_id, attributes, use_master_key=False):
        raise NotImplementedError()

    def fetch_by_id(self, class_name, object_id, use_master_key=False):
        raise NotImplementedError()

    def delete(self, class_name, object_id, use_master_key=False):
        raise NotImplementedError()

    def count(self, class_name, where, use_master_key=False):
        return len(self.object_ids)


@pytest.fixture
def posts():
    return [Post.create({'title': title, 'views': views}) for title, views in [('b', 2), ('a', 3), ('c', 1)]]


class TestWhere(object):
    @pytest.mark.parametrize('args,expected', [
        (('title', 'Hello'), {'title': 'Hello'}),
        (('title', '=', 'Hello'), {'title': 'Hello'}),
        (({'title': 'Hello', 'views': 1},), {'title': 'Hello', 'views': 1}),
        (('views', '!=', 1), {'views': {'$ne': 1}}),
        (('views', '>', 1), {'views': {'$gt': 1}}),
        (('views', '>=', 1), {'views': {'$gte': 1}}),
        (('views', '<', 1), {'views': {'$lt': 1}}),
        (('views', '<=', 1), {'views': {'$lte': 1}}),
        (('views', 'in', [1, 2]), {'views': {'$in': [1, 2]}}),
        (('title', 'like', '^He'), {'title': {'$regex': '^He'}})])
    def test_where(self, args, expected):
        assert Post.query().where(*args).where_clause == expected

    def test_where_combines_conditions(self):
        query = Post.query().where('views', '>', 1).where('views', '<', 5)
        assert query.where_clause == {'views': {'$gt': 1, '$lt': 5}}

    def test_where_callable(self):
        query = Post.query().where(lambda q: q.where('title', 'Hello'))
        assert query.where_clause == {'title': 'Hello'}

    def test_where_model_is_pointer(self):
        user = User.pointer('u1')
        assert Post.query().where('user', user).where_clause == {'user': pointer(user)}
        assert Post.query().where({'user': user}).where_clause == {'user': pointer(user)}
        assert Post.query().where_in('user', user).where_clause == {'user': {'$in': [pointer(user)]}}

    @pytest.mark.parametrize('operator', ['==', '<>', 'LIKE', 'between', None])
    def test_invalid_operator(self, store, operator):
        with pytest.raises(InvalidOperatorError):
            Post.query().where('views', operator, 1)
        assert store.calls == []

    def test_predicate_methods(self):
        query = (Post.query()
                 .contained_in('tags', 'news')
                 .not_contained_in('state', ['deleted'])
                 .where_null('deletedAt')
                 .where_not_null('title')
                 .where_exists('body')
                 .where_not_exists('draft')
                 .starts_with('slug', 'a.b'))
        assert query.where_clause == {
            'tags': {'$in': ['news']},
            'state': {'$nin': ['deleted']},
            'deletedAt': {'$in': [None]},
            'title': {'$nin': [None]},
            'body': {'$exists': True},
            'draft': {'$exists': False},
            'slug': {'$regex': '^a\\.b'}}

    def test_subquery_methods(self):
        users = User.query().where('username', 'alice')
        subquery = {'className': '_User', 'where': {'username': 'alice'}}
        assert Post.query().matches_query('user', users).where_clause == {'user': {'$inQuery': subquery}}
        assert Post.query().does_not_match_query('user', users).where_clause == {'user': {'$notInQuery': subquery}}
        assert Post.query().matches_key_in_query('author', 'username', users).where_clause == {
            'author': {'$select': {'query': subquery, 'key': 'username'}}}
        assert Post.query().does_not_match_key_in_query('author', 'username', users).where_clause == {
            'author': {'$dontSelect': {'query': subquery, 'key': 'username'}}}

    def test_dynamic_where(self):
        assert Post.where_title_and_view_count('Hello', 3).where_clause == {'title': 'Hello', 'viewCount': 3}
        assert Post.where_title_or_body('a', 'b').where_clause == {'$or': [{'title': 'a'}, {'body': 'b'}]}

    def test_unknown_attribute(self):
        with pytest.raises(AttributeError):
            Post.query().nothing


class TestOrQueries(object):
    def test_or_where_does_not_mutate(self):
        query = Post.query().where('title', 'a')
        or_query = query.or_where('title', 'b')
        assert or_query is not query
        assert query.where_clause == {'title': 'a'}
        assert or_query.where_clause == {'$or': [{'title': 'a'}, {'title': 'b'}]}

    def test_or_queries(self):
        first = Post.query().where('views', '>', 2)
        second = Post.query().where('title', 'c')
        query = Query.or_queries(first, second, lambda q: q.where('title', 'b'))
        assert query.model_class is Post
        assert query.where_clause == {'$or': [{'views': {'$gt': 2}}, {'title': 'c'}, {'title': 'b'}]}
        assert Query.or_queries([first, second]).where_clause == {'$or': [{'views': {'$gt': 2}}, {'title': 'c'}]}

    def test_or_query_keeps_modifiers(self):
        query = Post.query().with_('user').order_by('title').limit(5).or_query(Post.query().where('views', 1))
        assert query.includes == ['user']
        assert query._order == ['title']
        assert query._limit == 5

    def test_or_query_results(self, posts):
        results = Post.where('title', 'a').or_where('views', '<', 2).order_by('title').get()
        assert results.pluck('title') == ['a', 'c']


class TestExecution(object):
    def test_get(self, posts):
        results = Post.query().get()
        assert isinstance(results, Collection)
        assert all(isinstance(post, Post) for post in results)
        assert sorted(results.pluck('title')) == ['a', 'b', 'c']

    def test_get_select_keys(self, posts):
        post = Post.query().get(['title'])[0]
        assert post.title == 'b'
        assert post.views is None

    def test_order_by(self, posts):
        assert Post.query().order_by('title').get().pluck('title') == ['a', 'b', 'c']
        assert Post.query().order_by('views', ascending=False).get().pluck('title') == ['a', 'b', 'c']
        assert Post.query().order_by('views').order_by('views', False).get().pluck('views') == [3, 2, 1]

    def test_latest_and_oldest(self, posts):
        assert Post.query().oldest('views').get().pluck('title') == ['c', 'b', 'a']
        assert Post.query().latest('views').first().title == 'a'
        assert Post.query().latest()._order == ['-createdAt']

    def test_skip_limit_and_for_page(self, posts):
        query = Post.query().order_by('title')
        assert query.copy().skip(1).limit(1).get().pluck('title') == ['b']
        assert query.copy().for_page(2, per_page=2).get().pluck('title') == ['c']

    def test_trashed(self, posts):
        posts[0].update({'deletedAt': datetime(2017, 4, 17, tzinfo=UTC)})
        assert Post.query().without_trashed().where_clause == {'deletedAt': {'$in': [None]}}
        assert Post.query().only_trashed().where_clause == {'deletedAt': {'$nin': [None]}}
        assert sorted(Post.query().without_trashed().pluck('title')) == ['a', 'c']
        assert Post.query().only_trashed().pluck('title') == ['b']

    def test_count(self, posts):
        assert Post.query().count() == 3
        assert Post.where('views', '>', 1).count() == 2

    def test_pluck(self, posts):
        assert sorted(Post.query().pluck('title')) == ['a', 'b', 'c']

    def test_chunk(self, posts):
        chunks = []
        assert Post.query().order_by('title').chunk(2, lambda c: chunks.append(c.pluck('title'))) is True
        assert chunks == [['a', 'b'], ['c']]

    def test_chunk_stops(self, posts):
        chunks = []

        def callback(chunk):
            chunks.append(chunk)
            return False
        assert Post.query().chunk(1, callback) is False
        assert len(chunks) == 1

    def test_copy(self):
        query = Post.query().where('title', 'a')
        copy = query.copy().where('views', 1)
        assert query.where_clause == {'title': 'a'}
        assert copy.where_clause == {'title': 'a', 'views': 1}


class TestLookups(object):
    def test_find(self, posts):
        assert Post.query().find(posts[0].id) == posts[0]
        assert Post.query().find('missing') is None

    def test_find_does_not_mutate(self, posts):
        query = Post.query()
        query.find(posts[0].id)
        assert query.where_clause == {}

    def test_find_or_fail(self):
        with pytest.raises(ModelNotFoundError) as exc_info:
            Post.query().find_or_fail('missing')
        assert exc_info.value.model == 'Post'

    def test_find_or_new(self, posts):
        assert Post.query().find_or_new(posts[0].id) == posts[0]
        post = Post.query().find_or_new('missing')
        assert isinstance(post, Post)
        assert post.id is None

    def test_first(self, posts):
        assert Post.query().order_by('title').first().title == 'a'
        assert Post.where('title', 'z').first() is None

    def test_first_or_fail(self):
        with pytest.raises(ModelNotFoundError):
            Category.query().first_or_fail()

    def test_first_or_new(self, posts):
        assert Post.query().first_or_new({'title': 'a'}) == posts[1]

        post = Post.where('title', 'z').where('views', '>', 1).first_or_new({'body': 'Text'})
        assert post.id is None
        assert (post.title, post.body, post.views) == ('z', 'Text', None)

    def test_first_or_new_seed_decodes_pointers(self):
        user = User.create({'username': 'alice'})
        post = Post.where('user', user).first_or_new({'title': 'Hello'})
        assert post.id is None
        assert post.remote_object.get('user') == user.remote_object

    def test_first_or_create(self, posts, store):
        store.reset()
        assert Post.query().first_or_create({'title': 'a'}) == posts[1]
        assert store.calls_to('create_or_update') == []

        post = Post.query().first_or_create({'title': 'd'})
        assert post.id
        assert Post.query().count() == 4


class TestEagerLoading(object):
    def test_with_resolves_relations_without_further_calls(self, store):
        user = User.create({'username': 'alice'})
        categories = [Category.create({'name': name}) for name in ('News', 'Tech')]
        post = Post.create({'title': 'Hello', 'user': user, 'categories': categories})

        store.reset()
        found = Post.with_('user', 'categories').find(post.id)
        assert store.calls == [('query', 'Post', False)]
        assert found.relation_loaded('user')
        assert found.relation_loaded('categories')

        result = found.to_dict()
        assert store.calls == [('query', 'Post', False)]
        assert result['user']['username'] == 'alice'
        assert [c['name'] for c in result['categories']] == ['News', 'Tech']
        assert found['user'].username == 'alice'

    def test_with_nested_paths(self, store):
        user = User.create({'username': 'alice'})
        post = Post.create({'title': 'Hello', 'user': user})
        Comment.create({'body': 'First!', 'post': post, 'author': user})

        found = Comment.query().with_('post.user', 'author').first()
        store.reset()
        assert found['post']['user'].username == 'alice'
        assert found['author'].username == 'alice'
        assert store.calls == []

    def test_with_nested_paths_are_serialized(self, store):
        post = Post.create({'title': 'Hello'})
        first = Comment.create({'body': 'First!', 'post': post})
        Comment.create({'body': 'Second', 'post': post})

        found = Comment.query().with_('post.comments').order_by('body').first()
        store.reset()
        result = found.to_dict()
        assert store.calls == []
        assert result['post']['title'] == 'Hello'
        comments = result['post']['comments']
        assert comments[0] == pointer(first)
        assert comments[1]['body'] == 'Second'
        assert comments[1]['post'] == pointer(post)

    def test_with_nested_collections_are_serialized(self, store):
        news = Category.create({'name': 'News'})
        post = Post.create({'title': 'Hello', 'categories': [news]})
        Post.create({'title': 'Other', 'categories': [news]})

        found = Post.with_('categories.posts').find(post.id)
        store.reset()
        result = found.to_dict()
        assert store.calls == []
        assert result['categories'][0]['name'] == 'News'
        posts = result['categories'][0]['posts']
        assert posts[0] == pointer(post)
        assert posts[1]['title'] == 'Other'
        assert posts[1]['categories'] == [pointer(news)]

    def test_with_across_collections(self, store):
        user = User.create({'username': 'alice'})
        post = Post.create({'title': 'Hello'})
        Comment.create({'body': 'First!', 'post': post, 'author': user})
        Comment.create({'body': 'Second', 'post': post, 'author': user})

        found = Post.with_('comments.author').find(post.id)
        store.reset()
        comments = found['comments']
        assert sorted(comments.pluck('body')) == ['First!', 'Second']
        assert [c['author'].username for c in comments] == ['alice', 'alice']
        assert store.calls == []

    def test_with_non_relation(self, store):
        post = Post.create({'title': 'Hello', 'meta': {'lang': 'en'}})
        found = Post.with_('meta', 'meta.lang').find(post.id)
        assert found.meta == {'lang': 'en'}
        assert not found.relation_loaded('meta')


class TestGetAll(object):
    def test_get_all_pages_by_object_id(self, monkeypatch):
        store = SyntheticStore(2500)
        monkeypatch.setattr(Foo, 'config', Config(store=store))

        results = Foo.query().order_by('name').limit(5).get_all()
        assert len(results) == 2500
        assert len(set(results.ids())) == 2500
        assert len(store.queries) == 4
        assert [limit for where, order, limit in store.queries] == [PAGE_SIZE] * 4
        assert all(order == ['objectId'] for where, order, limit in store.queries)
        assert store.queries[0][0] == {}
        assert store.queries[1][0] == {'objectId': {'$gt': '000999'}}
        assert store.queries[3][0] == {'objectId': {'$gt': '002499'}}

    def test_get_all_keeps_constraints(self, posts):
        results = Post.where('views', '>', 1).get_all()
        assert sorted(results.pluck('title')) == ['a', 'b']
