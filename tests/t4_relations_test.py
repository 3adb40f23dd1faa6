import unittest

from mongorel.exc import InvalidArgumentError, ModelNotFoundError, RelationNotFoundError
from mongorel.relations import HasMany, BelongsTo, HasManyThrough

from .models import Country, User, Profile, Post
from .util import get_working_db_for_tests, ExpectedQueryCounter


class RelationsTest(unittest.TestCase):
    """ Test has_*, belongs_to, *_through relations """

    longMessage = True
    maxDiff = None

    def setUp(self):
        self.db = get_working_db_for_tests()

        self.nl = Country.create({'name': 'NL'})
        self.be = Country.create({'name': 'BE'})
        self.alice = User.create({'name': 'alice', 'age': 30, 'countryId': self.nl.key})
        self.bob = User.create({'name': 'bob', 'age': 20, 'countryId': self.nl.key})
        self.a1 = self.alice.posts().create({'title': 'a1'})
        self.a2 = self.alice.posts().create({'title': 'a2'})
        self.b1 = self.bob.posts().create({'title': 'b1'})

    def test_declaration(self):
        posts = self.alice.posts()
        self.assertIsInstance(posts, HasMany)
        self.assertEqual(posts.foreign_key, 'userId')
        self.assertEqual(posts.local_key, '_id')
        self.assertIs(posts.model, Post)
        self.assertIs(posts.parent, self.alice)
        self.assertEqual(repr(posts), 'HasMany(User -> Post)')

        user = self.a1.user()
        self.assertIsInstance(user, BelongsTo)
        self.assertEqual(user.foreign_key, 'userId')

        through = self.nl.posts()
        self.assertIsInstance(through, HasManyThrough)
        self.assertEqual((through.first_key, through.second_key), ('countryId', 'userId'))

    def test_has_many(self):
        self.assertEqual(self.a1.get('userId'), self.alice.key)
        self.assertEqual(sorted(self.alice.posts().pluck('title')), ['a1', 'a2'])
        self.assertEqual(self.alice.posts().count(), 2)
        self.assertEqual(self.alice.posts().where('title', 'a2').first().key, self.a2.key)
        self.assertEqual([p.get('title') for p in self.bob.posts().get_results()], ['b1'])

        # Relation conditions are ANDed with the user's OR branches
        self.assertEqual(self.alice.posts().where('title', 'a1').or_where('title', 'b1').count(), 1)

        # Soft-deleted related documents are not there
        self.a2.delete()
        self.assertEqual(self.alice.posts().count(), 1)
        self.assertEqual(self.alice.posts().with_trashed().count(), 2)

        # Unsaved parent: nothing
        self.assertEqual(User({'name': 'c'}).posts().get(), [])
        with self.assertRaises(InvalidArgumentError):
            User({'name': 'c'}).posts().create({'title': 'c1'})

        # save()
        post = self.bob.posts().save(Post({'title': 'b2'}))
        self.assertTrue(post.exists)
        self.assertEqual(post.get('userId'), self.bob.key)
        self.assertEqual(self.bob.posts().count(), 2)

        posts = self.alice.posts().save_many([Post({'title': 'a3'}), Post({'title': 'a4'})])
        self.assertEqual(len(posts), 2)
        self.assertEqual(self.alice.posts().count(), 3)

    def test_has_one(self):
        self.assertIsNone(self.alice.profile().get_results())

        self.alice.profile().create({'bio': 'hi'})
        profile = self.alice.profile().get_results()
        self.assertIsInstance(profile, Profile)
        self.assertEqual(profile.get('bio'), 'hi')

        # Inverse
        self.assertEqual(profile.user().get_results().key, self.alice.key)

    def test_belongs_to(self):
        self.assertEqual(self.a1.user().get_results().get('name'), 'alice')
        self.assertEqual(self.alice.country().first().get('name'), 'NL')

        # associate(): in memory until saved
        post = self.a1
        self.assertIs(post.user().associate(self.bob), post)
        self.assertEqual(post.get('userId'), self.bob.key)
        self.assertTrue(post.is_dirty('userId'))
        self.assertEqual(Post.find(post.key).get('userId'), self.alice.key)
        post.save()
        self.assertEqual(Post.find(post.key).get('userId'), self.bob.key)

        # associate() an id
        post.user().associate(self.alice.key)
        self.assertEqual(post.get('userId'), self.alice.key)

        # dissociate()
        post.user().dissociate()
        self.assertIsNone(post.get('userId'))
        self.assertIsNone(post.user().first())
        post.save()
        self.assertIsNone(Post.find(post.key).get('userId'))

        # The related document is soft-deleted
        self.bob.delete()
        self.assertIsNone(self.b1.user().first())

    def test_has_many_through(self):
        self.assertEqual(sorted(self.nl.posts().pluck('title')), ['a1', 'a2', 'b1'])
        self.assertEqual(self.be.posts().count(), 0)

        # The intermediate keys are looked up once per call
        with ExpectedQueryCounter(self, 3, 'users + count + page'):
            page = self.nl.posts().paginate(1, 2)
        self.assertEqual(page['meta']['total'], 3)
        with ExpectedQueryCounter(self, 2, 'users + posts'):
            with self.assertRaises(ModelNotFoundError):
                self.be.posts().first_or_fail()
        self.assertIn(self.nl.first_post().get_results().get('title'), {'a1', 'a2', 'b1'})
        self.assertIsNone(self.be.first_post().get_results())

        # The intermediate model has its own soft-delete scope
        posts = self.nl.posts()
        self.assertEqual(posts.count(), 3)
        self.bob.delete()
        self.assertEqual(posts.count(), 2)
        self.assertEqual(sorted(self.nl.posts().pluck('title')), ['a1', 'a2'])

        # Eager
        countries = Country.with_('posts').order_by('name').get()
        self.assertEqual([c.get('name') for c in countries], ['BE', 'NL'])
        self.assertEqual(countries[0].get_relation('posts'), [])
        self.assertEqual(sorted(p.get('title') for p in countries[1].get_relation('posts')), ['a1', 'a2'])

        country = Country.with_('first_post').where('name', 'NL').first()
        self.assertIn(country.get_relation('first_post').get('title'), {'a1', 'a2'})

    def test_eager_select(self):
        """ with_() options apply to the related documents only """
        with ExpectedQueryCounter(self, 2, 'users + posts'):
            users = User.with_('posts', {'select': ['title']}).order_by('name').get()

        alice = users[0]
        self.assertEqual(alice.get('name'), 'alice')
        self.assertEqual(alice.get_attributes(), User.find(self.alice.key).get_attributes())

        posts = alice.get_relation('posts')
        self.assertEqual(sorted(p.get('title') for p in posts), ['a1', 'a2'])
        for post in posts:
            self.assertEqual(set(post.get_attributes()), {'_id', 'title'})

        # to_dict() merges the relation under its name
        self.assertEqual(sorted(p['title'] for p in alice.to_dict()['posts']), ['a1', 'a2'])

        # exclude
        users = User.with_('posts', {'exclude': ['userId', 'createdAt', 'updatedAt']}).order_by('name').get()
        self.assertEqual(set(users[0].get_relation('posts')[0].get_attributes()), {'_id', 'title', 'isDeleted'})

    def test_eager_keys_are_loaded_quietly(self):
        """ Keys the merge relies on are loaded, and removed afterwards """
        # The parent projection leaves the key out
        posts = Post.select('title').with_('user').order_by('title').get()
        self.assertEqual([p.get('title') for p in posts], ['a1', 'a2', 'b1'])
        self.assertEqual(set(posts[0].get_attributes()), {'_id', 'title'})
        self.assertEqual(posts[0].get_relation('user').get('name'), 'alice')
        self.assertFalse(posts[0].is_dirty())

        # The user asked for the key: it stays
        posts = Post.select('title', 'userId').with_('user').order_by('title').get()
        self.assertEqual(set(posts[0].get_attributes()), {'_id', 'title', 'userId'})

    def test_eager_loading(self):
        # One query per relation, no matter how many parents
        with ExpectedQueryCounter(self, 3, 'users + posts + country'):
            users = User.with_(['posts', 'country']).order_by('name').get()
        self.assertEqual([len(u.get_relation('posts')) for u in users], [2, 1])
        self.assertEqual([u.get_relation('country').get('name') for u in users], ['NL', 'NL'])

        # To-one relation with nothing to load: None
        orphan = Post.create({'title': 'orphan'})
        post = Post.with_('user').where('_id', orphan.key).first()
        self.assertTrue(post.relation_loaded('user'))
        self.assertIsNone(post.get_relation('user'))

        # To-many relation with nothing to load: []
        carol = User.create({'name': 'carol'})
        user = User.with_('posts').find(carol.key)
        self.assertEqual(user.get_relation('posts'), [])

        # No parents: no relation queries
        with ExpectedQueryCounter(self, 1):
            self.assertEqual(User.where('name', 'nobody').with_('posts').get(), [])

    def test_eager_options(self):
        # sort
        user = User.with_('posts', {'sort': ['title-']}).where('name', 'alice').first()
        self.assertEqual([p.get('title') for p in user.get_relation('posts')], ['a2', 'a1'])

        # A callable
        user = User.with_('posts', lambda q: q.where('title', 'a1')).where('name', 'alice').first()
        self.assertEqual([p.get('title') for p in user.get_relation('posts')], ['a1'])

        # A dict of relations
        user = User.with_({'posts': {'select': ['title']}, 'country': None}).where('name', 'alice').first()
        self.assertEqual(user.get_relation('country').get('name'), 'NL')

        # limit: for the whole batch
        users = User.with_('posts', {'sort': ['title'], 'limit': 2}).order_by('name').get()
        self.assertEqual([len(u.get_relation('posts')) for u in users], [2, 0])

        # Soft-deleted related documents
        self.a1.delete()
        user = User.with_('posts').where('name', 'alice').first()
        self.assertEqual([p.get('title') for p in user.get_relation('posts')], ['a2'])

    def test_eager_nested(self):
        with ExpectedQueryCounter(self, 3, 'countries + users + posts'):
            countries = Country.with_(['users', 'users.posts']).where('name', 'NL').get()
        users = sorted(countries[0].get_relation('users'), key=lambda u: u.get('name'))
        self.assertEqual([u.get('name') for u in users], ['alice', 'bob'])
        self.assertEqual(sorted(p.get('title') for p in users[0].get_relation('posts')), ['a1', 'a2'])

        # Nested without the parent: the parent is loaded as well
        country = Country.with_('users.posts').where('name', 'NL').first()
        self.assertTrue(country.relation_loaded('users'))

        # The `with` option
        country = Country.with_('users', {'select': ['name'], 'with': {'posts': {'select': ['title']}}}) \
                         .where('name', 'NL').first()
        user = sorted(country.get_relation('users'), key=lambda u: u.get('name'))[0]
        self.assertEqual(set(user.get_attributes()), {'_id', 'name'})
        self.assertEqual(set(user.get_relation('posts')[0].get_attributes()), {'_id', 'title'})

        # Unknown nested relation
        with self.assertRaises(RelationNotFoundError):
            Country.with_('users.nope').get()

    def test_with_is_consumed(self):
        q = User.with_('posts').where('name', 'alice')
        self.assertTrue(q.first().relation_loaded('posts'))
        self.assertFalse(q.first().relation_loaded('posts'))
